from setuptools import setup, find_packages

# defines __version__
exec(open("hpipe/_version.py").read())

setup(
    name="hpipe",
    version=__version__,
    description=
        "An incremental, callback-driven HTTP/1.1 client with pipelining",
    long_description=open("README.rst").read(),
    author="The hpipe developers",
    license="MIT",
    packages=find_packages(exclude=["hpipe.tests"]),
    package_data={'hpipe': ['py.typed']},
    python_requires=">=3.8",
    install_requires=[
        "click>=7.0",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "hpipe=hpipe.__main__:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: Implementation :: CPython",
        "Programming Language :: Python :: Implementation :: PyPy",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Internet :: WWW/HTTP",
        "Topic :: System :: Networking",
    ],
)
