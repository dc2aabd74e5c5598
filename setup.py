import codecs
import os
import re

from setuptools import find_packages
from setuptools import setup


def read_file(filename, encoding='utf8'):
    """Read unicode from given file."""
    with codecs.open(filename, encoding=encoding) as fd:
        return fd.read()


here = os.path.abspath(os.path.dirname(__file__))

# read version number (and other metadata) from package init
init_fn = os.path.join(here, 'simple_acme', '__init__.py')
meta = dict(re.findall(r"""__([a-z]+)__ = '([^']+)""", read_file(init_fn)))

readme = read_file(os.path.join(here, 'README.rst'))
version = meta['version']

install_requires = [
    'acme>=2.0.0',
    'ConfigArgParse>=1.5.3',
    'configobj>=5.0.6',
    'cryptography>=43.0.0',  # pkcs12.serialize_key_and_certificates
    'josepy>=2.0.0',
    'parsedatetime>=2.4',
    'pyrfc3339',
    'pytz>=2019.3',
    'requests>=2.20.0',
]

azure_extras = [
    'azure-core',
    'azure-identity>=1.5.0',
    'azure-mgmt-dns>=8.0.0',
    'azure-mgmt-web>=6.0.0',
]

test_extras = [
    'pytest',
    'pytest-cov',
    'pytest-xdist',
] + azure_extras

setup(
    name='simple-acme',
    version=version,
    description="ACME certificate lifecycle client for install targets",
    long_description=readme,
    author="simple-acme Project",
    license='Apache License 2.0',
    python_requires='>=3.9',
    classifiers=[
        'Development Status :: 4 - Beta',
        'Environment :: Console',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: Apache Software License',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Topic :: Internet :: WWW/HTTP',
        'Topic :: Security',
        'Topic :: System :: Systems Administration',
        'Topic :: Utilities',
    ],

    packages=find_packages(include=['simple_acme', 'simple_acme.*']),
    include_package_data=True,

    install_requires=install_requires,
    extras_require={
        'azure': azure_extras,
        'test': test_extras,
    },

    entry_points={
        'console_scripts': [
            'simple-acme = simple_acme.main:main',
        ],
    },
)
