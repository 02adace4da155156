"""Packaging information for filenfs."""

import sys

import setuptools

from filenfs.constants import VERSION

if sys.version_info[:3] < (3, 8, 0):
    print("filenfs requires Python 3.8 to run.")
    sys.exit(1)

install_requires = [
    "msgpack>=1.0.0",
    "pyzmq>=19.0.0",
    "lz4>=3.0.2",
    "fasteners>=0.15",
    "semver>=2.10.0",
]

extras_require = {
    "dev": [
        "flake8>=3.7.9",
        "flake8-docstrings>=1.5.0",
        "flake8-import-order>=0.18.1",
        "black>=19.10b0",
        "mypy>=0.770",
        "pytest>=5.4.1",
        "pytest-cov>=2.8.1",
    ]
}


def _long_description():
    with open("README.md") as f:
        return f.read()


setuptools.setup(
    name="filenfs",
    version=VERSION,
    description="Filen cloud storage exposed as a filesystem for transfer tools.",
    long_description=_long_description(),
    long_description_content_type="text/markdown",
    license="Apache",
    packages=setuptools.find_packages(),
    install_requires=install_requires,
    extras_require=extras_require,
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Topic :: System :: Filesystems",
    ],
    python_requires=">=3.8",
)
