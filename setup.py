#!/usr/bin/env python3
"""
Setup script for mudslide
"""

from setuptools import setup, find_namespace_packages

setup(
    name="mudslide",
    version="0.1.0",
    description="Send WhatsApp messages from the command line",
    packages=find_namespace_packages(include=["mudslide", "mudslide.*", "shared", "shared.*"]),
    install_requires=[
        "websockets>=15.0",
        "typer>=0.12.3",
        "rich>=13.9.2",
        "aioconsole>=0.8.1",
        "PyYAML>=6.0.1",
        "qrcode>=7.4",
    ],
    extras_require={
        "test": [
            "pytest>=8.4.2",
            "pytest-asyncio>=1.2.0",
        ],
    },
    python_requires=">=3.10",
    entry_points={
        'console_scripts': [
            'mudslide=mudslide.cli:main',
        ],
    },
)
