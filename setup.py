from setuptools import setup, find_packages


setup(
    name="artpack",
    version="0.1",
    packages=find_packages(include=["artpack", "artpack.*"]),
    description="Pack build artifacts matched by glob patterns into a streaming zstd archive, and restore them.",
    author="vercingetorx",
    python_requires=">=3.11",
    install_requires=[
        "zstandard>=0.22.0",
        "psutil>=5.9",
    ],
    entry_points={
        "console_scripts": [
            "artpack=artpack.cli:main",
        ]
    },
)
