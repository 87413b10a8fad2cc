# setup.py
from setuptools import setup, find_packages

setup(
    name="finbud",
    version="0.1.0",
    description="Personal finance tracker with receipt scanning and spending analytics",
    author="Your Name",
    author_email="you@example.com",
    url="https://github.com/yourusername/finbud",
    packages=find_packages(include=["finbud", "finbud.*"]),
    python_requires=">=3.10",
    install_requires=[
        "click>=7.0",
        "pyyaml>=5.3",
        "python-dotenv>=0.19",
        "fastapi>=0.100",
        "uvicorn>=0.20",
        "huggingface_hub>=0.24",
        "mcp>=1.0,<2",
        "anyio>=3.6",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "httpx>=0.24",
        ],
    },
    entry_points={
        "console_scripts": [
            "finbud=finbud.cli:main",
            "finbud-web=finbud.web:main",
            "finbud-mcp=finbud.mcp_server:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
