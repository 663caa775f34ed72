import re

import setuptools

with open("pyenergyflow/__init__.py", "r") as fh:
    version_tuple = re.search(r"version_tuple = \((\d+), (\d+), (\d+)\)", fh.read()).groups()
    __version__ = '.'.join(version_tuple)

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="pyenergyflow",
    version=__version__,
    description="Python module to read live energy flow from a home battery and solar gateway or the Fleet API",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(exclude=["*.tests", "*.tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        'requests',
        'urllib3',
        'python-dotenv',
        'python-dateutil',
        'pydantic>=2.0',
        'pydantic-settings>=2.0',
    ],
    extras_require={
        'test': ['pytest', 'pytest-asyncio'],
    },
    entry_points={
        'console_scripts': ['pyenergyflow=pyenergyflow.__main__:main'],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
