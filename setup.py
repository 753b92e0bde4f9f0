import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name='sockschain',
    version='1.0',
    author="acuifex",
    author_email="proxychains@acuifex.ru",
    description="An asyncio SOCKS4/4a/5 client with BIND, UDP ASSOCIATE and proxy chaining.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/acuifex/proxychains",
    packages=["sockschain"],
    python_requires=">=3.8",
    install_requires=[
        'urllib3',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3.10",
        "License :: OSI Approved :: GNU Affero General Public License v3 or later (AGPLv3+)",
        "Operating System :: OS Independent",
        "Framework :: AsyncIO",
    ],
 )
