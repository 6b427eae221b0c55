#!/usr/bin/env python3
from setuptools import setup, find_packages

setup(
    name='obsred',
    version='0.1',
    description='reduction, plate solving and stacking of observatory frames',
    packages=find_packages(include=['obsred', 'obsred.*']),
    entry_points={
        'console_scripts': [
            'obsred=obsred.cli.obsred:main',
        ]
    },
    python_requires='>=3.10',
    install_requires=[
        'scipy',
        'pandas',
        'pytz',
        'astropy',
        'astroplan',
        'PyYAML',
        'numpy',
        'single_source'
    ],
    extras_require={
        'full':  [
            'sep',
            'astroquery'
        ],
        'test': [
            'pytest',
            'pytest-asyncio',
            'pytest-mock',
            'photutils',
            'sep'
        ]
    }
)
