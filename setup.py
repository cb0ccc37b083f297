from setuptools import find_packages, setup

setup(
    name="quarto-record",
    version="0.3.1",
    description="Capture a screenshot of a Quarto website preview for every commit or profile.",
    long_description=open("README.md", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "psutil",
        "pydantic>=2",
        "Pillow",
        "PyYAML",
        "toml",
    ],
    extras_require={
        "dev": ["black"],  # Code formatter for linting
        "test": ["pytest", "pytest-asyncio", "pytest-mock"],
    },
    entry_points={
        "console_scripts": [
            "quarto_record=quarto_record.cli_app:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Operating System :: MacOS :: MacOS X",
        "Topic :: Software Development :: Testing",
    ],
    keywords="quarto, screenshot, visual regression, git",
    python_requires=">=3.9",
)
