"""
patched-sync - JSON Patch object synchronization
"""

from setuptools import setup, find_packages

setup(
    name="patched-sync",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.10",
    description="Keep a local object in sync with a remote copy through JSON Patch",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    license="MIT",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    install_requires=[
        "jsonpatch>=1.33",
        "httpx>=0.24.0",
        "requests>=2.28.0",
        "websockets>=14.0",
        "PyYAML>=6.0",
        "click>=8.1.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "black>=23.0.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "patched-sync=patched_sync.cli:main",
        ],
    },
)
