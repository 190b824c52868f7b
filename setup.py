from setuptools import setup, find_namespace_packages

setup(
    name="mythic-compose",
    version="0.1.0",
    packages=find_namespace_packages(where="src", include=["mythic_compose*"]),
    package_dir={"": "src"},
    python_requires=">=3.8",
    install_requires=[
        "pydantic>=2.0",
        "pyyaml>=6.0",
        "click>=8.0",
        "psutil>=5.9",
        "python-dotenv>=1.0",
        "docker>=7.0",
        "requests>=2.31",
        "packaging>=23.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "mythic-compose=mythic_compose.CLI.main:main",
        ],
    },
)
