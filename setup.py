"""
peerrelay - Setup

Packages the signaling relay, its HTTP server and the Python client.
"""

from setuptools import setup, find_packages
from pathlib import Path


setup(
    name="peerrelay",
    version="0.3.0",
    description="WebSocket signaling relay for WebRTC peer-to-peer connections",
    long_description=open("README.md").read() if Path("README.md").exists() else "",
    long_description_content_type="text/markdown",
    author="peerrelay Contributors",
    license="MIT",
    python_requires=">=3.10",
    packages=find_packages(exclude=["tests", "tests.*", "examples", "examples.*"]),
    install_requires=[
        "pydantic>=2.0",
        "fastapi>=0.100",
        "starlette>=0.27",
        "uvicorn[standard]>=0.23",
        "websockets>=12.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
            "pytest-asyncio>=0.21",
            "httpx>=0.24",
        ],
    },
    entry_points={
        "console_scripts": [
            "peerrelay=peerrelay.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Framework :: AsyncIO",
        "Framework :: FastAPI",
        "Topic :: Communications",
        "Topic :: Internet :: WWW/HTTP",
    ],
)
