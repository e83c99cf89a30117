from setuptools import setup

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line for line in fh.read().splitlines() if line and not line.startswith("#")]

test_requirements = [
    "pytest>=7.0",
    "pytest-asyncio>=0.23.0",
]

setup(
    name="webapi-client",
    version="0.1.0",
    author="WebAPI Client Engineering",
    description="Resilient asynchronous HTTP client core with retries, envelope decoding and request metrics",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=['webapi_client'],
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Framework :: AsyncIO",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=requirements,
    extras_require={
        "test": test_requirements,
        "dev": test_requirements + [
            "black>=23.0.0",
            "mypy>=1.0",
        ],
    },
)
