from setuptools import setup, find_packages

setup(
    name="mymemories",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "httpx>=0.25.0",
        "beautifulsoup4>=4.12.0",
        "python-dotenv>=1.0.0",
        "cryptography>=41.0.0",
        "argon2-cffi>=23.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    author="Your Name",
    author_email="your.email@example.com",
    description="Личный каталог категорий и ссылок с шифрованием и проверкой ссылок",
    long_description=open("README.md", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/mymemories",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    entry_points={
        "console_scripts": [
            "mymemories=mymemories.main:main",
        ],
    },
)
