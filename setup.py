from setuptools import find_packages, setup

setup(
    name="devlink",
    version="0.1.0",
    description="Local cache and cross-linking of GitHub repositories, pull requests and Azure DevOps pipelines",
    packages=find_packages(include=["devlink", "devlink.*"]),
    include_package_data=True,
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2",
        "PyYAML>=6",
        "fastapi>=0.110",
        "uvicorn>=0.27",
    ],
    extras_require={
        "test": ["pytest>=7", "httpx>=0.27"],
    },
    entry_points={"console_scripts": ["devlink=devlink.cli:main"]},
)
