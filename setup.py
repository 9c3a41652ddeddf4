import os
import fixwaf
from setuptools import setup, find_packages


def read(file_name: str) -> str:
    with open(os.path.join(os.path.dirname(__file__), file_name)) as of:
        return of.read()


def requirements(file_name: str) -> list:
    return [line for line in read(file_name).splitlines() if line and not line.startswith("#")]


setup(
    name=fixwaf.__title__,
    version=fixwaf.__version__,
    description=fixwaf.__description__,
    license=fixwaf.__license__,
    packages=find_packages(exclude=["test", "test.*"]),
    long_description=read("README.md"),
    long_description_content_type="text/markdown",
    include_package_data=True,
    zip_safe=False,
    install_requires=requirements("requirements.txt"),
    extras_require={"test": requirements("requirements-test.txt")},
    tests_require=["pytest"],
    python_requires=">=3.9",
    classifiers=[
        # Current project status
        "Development Status :: 4 - Beta",
        # Audience
        "Intended Audience :: System Administrators",
        "Intended Audience :: Information Technology",
        # License information
        "License :: OSI Approved :: Apache Software License",
        # Supported python versions
        "Programming Language :: Python :: 3.9",
        # Supported OS's
        "Operating System :: POSIX :: Linux",
        "Operating System :: Unix",
        # Extra metadata
        "Environment :: Console",
        "Natural Language :: English",
        "Topic :: Security",
        "Topic :: Utilities",
    ],
    keywords="cloud security waf",
)
