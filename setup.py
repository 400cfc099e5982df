#!/usr/bin/env python
"""
Setup script for the whatsbot package.
"""

import os
import re
from setuptools import setup, find_packages

# Get version from whatsbot/version.py
with open(os.path.join('whatsbot', 'version.py'), 'r') as f:
    version_file = f.read()
    version_match = re.search(r"__version__ = ['\"]([^'\"]*)['\"]", version_file)
    if version_match:
        version = version_match.group(1)
    else:
        raise RuntimeError("Unable to find version string.")

# Read long description from README.md
with open('README.md', 'r') as f:
    long_description = f.read()

setup(
    name='whatsbot',
    version=version,
    description='HTTP and native-call control surface over a WhatsApp session',
    long_description=long_description,
    long_description_content_type='text/markdown',
    packages=find_packages(exclude=['tests', 'tests.*']),
    include_package_data=True,
    python_requires='>=3.9',
    install_requires=[
        'requests>=2.25.0',
        'websocket-client>=1.2.0',
        'cryptography>=3.4.0',
        'Flask>=2.0.0',
    ],
    extras_require={
        'dev': [
            'pytest>=6.0.0',
            'pytest-cov>=2.12.0',
            'black>=21.5b2',
            'isort>=5.9.0',
            'mypy>=0.812',
            'flake8>=3.9.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'whatsbot-api=whatsbot.server:main',
        ],
    },
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Topic :: Communications :: Chat',
    ],
    keywords='whatsapp, messaging, qr pairing, session',
)
