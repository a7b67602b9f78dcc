import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="tusstream",
    version="0.1.0",
    description="Asynchronous tus (tus.io) client that streams uploads",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="Apache 2",
    packages=setuptools.find_packages(exclude=["tests", "tests.*"]),
    package_data={"tusstream": ["py.typed"]},
    include_package_data=True,
    zip_safe=False,
    entry_points={
        "console_scripts": [
            "tusstream-upload=tusstream.entrypoint:main",
        ]
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Development Status :: 4 - Beta",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
        "Topic :: Internet :: WWW/HTTP",
        "Typing :: Typed",
    ],
    python_requires=">=3.10",
    install_requires=["aiohttp", "tenacity", "yarl"],
    extras_require={
        "test": ["pytest", "pytest-asyncio", "pytest-aiohttp"],
    },
)
