import os
from cryptdrive import __name__, __version__
from setuptools import setup, find_packages

BASE = os.path.dirname(__file__)
with open(os.path.join(BASE, 'README.md'), encoding='utf-8') as fh:
    long_description = fh.read()


setup(
    name=__name__,
    version=__version__,
    description="Encrypted overlay for remote file storages",
    long_description=long_description,
    long_description_content_type="text/markdown",
    keywords="encryption storage overlay",
    license='MIT',
    python_requires='>=3.8',
    packages=find_packages(exclude=('tests', 'tests.*')),
    zip_safe=False,
    entry_points={
        'console_scripts': [
            'cryptdrive=cryptdrive.cli:main',
        ],
    },
    install_requires=[
        'aiohttp>=3.8',
        'appdirs>=1.4.3',
        'cryptography>=38.0',
        'pyyaml>=5.3.1',
    ],
    extras_require={
        'lint': [
            'pylint'
        ],
        'test': [
            'coverage',
        ],
    },
    classifiers=[
        'Framework :: AsyncIO',
        'Intended Audience :: Developers',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
        'Topic :: Security :: Cryptography',
        'Topic :: System :: Filesystems',
        'Topic :: Utilities',
    ],
)
