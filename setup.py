"""Setup script for zip-merger"""
from setuptools import setup
from pathlib import Path
readme_path = Path(__file__).parent / "README.md"
long_description = readme_path.read_text(encoding="utf-8") if readme_path.exists() else ""
setup(
    name="zip-merger",
    version="1.0.0",
    author="Zip Merger Project",
    author_email="info@zip-merger.dev",
    description="Add files to zip archives without ever leaving them corrupted",
    long_description=long_description,
    long_description_content_type="text/markdown",
    py_modules=["zip_merger"],
    python_requires=">=3.8",
    install_requires=[],
    extras_require={
        "progress": ["tqdm>=4.60.0"],
        "rich": ["rich>=12.0.0"],
        "dev": ["pytest>=6.0.0", "black>=22.0.0", "flake8>=4.0.0"],
        "test": ["pytest>=6.0.0"],
        "full": ["tqdm>=4.60.0", "rich>=12.0.0"],
    },
    entry_points={
        "console_scripts": [
            "zip-merger=zip_merger:cli_main",
        ],
    },
    classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: System :: Archiving",
        "Topic :: System :: Archiving :: Compression",
    ],
)
