#! /usr/bin/env python
# SPDX-License-Identifier: GPL-2.0-or-later

from setuptools import setup, find_packages

setup(
    name='sshkeysync',
    version='1.0',
    description='Synchronise metadata SSH keys with authorized keys files',
    packages=find_packages(exclude=['sshkeysync.tests']),
    python_requires='>=3.7',
    install_requires=[
        'PyYAML',
        'prometheus_client',
    ],
    extras_require={
        'test': ['pytest', 'pytest-mock'],
    },
    entry_points={
        'console_scripts': ['sshkeysync = sshkeysync.__main__:main'],
    },
    zip_safe=False,
)
