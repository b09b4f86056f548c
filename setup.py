"""Setup script for ContextPacker package."""

from setuptools import setup, find_packages
import pathlib

# Get the long description from the README file
here = pathlib.Path(__file__).parent.resolve()
long_description = (here / "README.md").read_text(encoding="utf-8") if (here / "README.md").exists() else "ContextPacker: token budgeting and content transforms for packing source code into LLM context."

setup(
    name="context-packer",
    version="0.1.0",
    description="Token budgeting, oversized-file splitting and dead-code pruning for LLM context packs",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="ContextPacker Team",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
    keywords="llm, context, token-budgeting, code-packing, ai",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8, <4",
    install_requires=[
        "PyYAML>=6.0",
        "tiktoken>=0.4.0",
    ],
    extras_require={
        "dev": [
            "pytest>=6.0",
            "pytest-cov>=2.0",
            "black>=22.0",
            "flake8>=4.0",
            "mypy>=0.950",
        ],
    },
)
