"""
Setup script for the cv-refiner project.

Allows development installation with `pip install -e .`
"""

from setuptools import setup, find_packages

setup(
    name="cv-refiner",
    version="0.1.0",
    packages=find_packages(include=["refiner", "refiner.*", "refiner_service", "refiner_service.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi",
        "uvicorn",
        "python-multipart",
        "pydantic>=2",
        "pydantic-settings",
        "python-dotenv",
        "httpx",
        "openai",
        "langchain-core",
        "langchain-openai",
        "json-repair",
        "tenacity",
        "beautifulsoup4",
        "playwright",
        "pypdf",
        "python-docx",
        "phonenumbers",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
)
