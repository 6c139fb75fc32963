from setuptools import setup, find_packages

setup(
    name="vcgen",
    version="0.1.0",
    description="vcgen — verification-condition generator for effectful loop programs",
    packages=find_packages(include=["vcgen", "vcgen.*"]),
    python_requires=">=3.10",
    install_requires=[
        "z3-solver>=4.12.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "hypothesis>=6.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "vcgen=vcgen.cli:main",
        ],
    },
)
