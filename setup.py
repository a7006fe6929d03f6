import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="ncchview",
    version="0.0.1",
    description="Lazy inspection of NCCH containers",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(exclude=['tests', 'scripts']),
    scripts=['scripts/ncchinfo.py'],
    install_requires=[
        'pycryptodomex',
        'bitstring>=4,<5',
    ],
    extras_require={
        'test': ['pytest'],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
