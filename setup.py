from setuptools import setup

setup(
    name="syncer",
    version="0.1.0",
    packages=["syncer"],
    install_requires=[
        "rich>=13.0.0",
        "click>=8.0.0",
        "toml>=0.10.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pyfakefs>=5.0.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "syncer=syncer.__main__:main",
        ]
    },
  )
