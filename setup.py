import setuptools

with open("VERSION", "r") as f:
    version = f.read().strip()

with open("README.md", "r") as f:
    long_description = f.read()

setuptools.setup(
   name="xpconnector",
   version=version,
   description="Subscribe to X-Plane datarefs, set their values, and send commands over UDP.",
   packages=setuptools.find_packages(include=["xpconnector", "xpconnector.*"]),
   install_requires=[
      "ruamel.yaml"
   ],
   extras_require={
      "test": ["pytest"],
   },
   entry_points={
      "console_scripts": ["xpconnector-monitor=xpconnector.start:main"],
   },
   license="MIT",
   long_description=long_description,
   long_description_content_type="text/markdown",
   include_package_data=True,
   python_requires=">=3.10",
)
