"""
Setuptools build script for the imcdatasets package.

Package metadata lives in the constants below; runtime and development
dependencies are read from requirements.txt and requirements-dev.txt so that
the same pins serve pip, CI and editable installs. The version is read from
imcdatasets/_version.py without importing the package, which would require
its scientific dependencies to be installed at build time.
"""

import pathlib  # >=3.10 - Path manipulation for reading README and requirement files
import re  # >=3.10 - Version string extraction from _version.py

import setuptools  # >=61.0.0 - setup() and package discovery

HERE = pathlib.Path(__file__).parent
PACKAGE_DIR = HERE / 'imcdatasets'
VERSION_PATH = PACKAGE_DIR / '_version.py'
README_PATH = HERE / 'README.md'
REQUIREMENTS_PATH = HERE / 'requirements.txt'
DEV_REQUIREMENTS_PATH = HERE / 'requirements-dev.txt'

PACKAGE_NAME = 'imcdatasets'
AUTHOR = 'imcdatasets Development Team'
AUTHOR_EMAIL = 'imcdatasets@example.com'
DESCRIPTION = 'Curated imaging mass cytometry datasets with local caching and on-disk image storage'
LICENSE = 'GPL-3.0-or-later'
URL = 'https://github.com/BodenmillerGroup/imcdatasets'

KEYWORDS = [
    'imaging mass cytometry', 'single-cell', 'spatial omics', 'multiplexed imaging',
    'anndata', 'datasets', 'scientific computing'
]

CLASSIFIERS = [
    'Development Status :: 4 - Beta',
    'Intended Audience :: Science/Research',
    'Topic :: Scientific/Engineering :: Bio-Informatics',
    'Topic :: Scientific/Engineering :: Image Processing',
    'Operating System :: POSIX :: Linux',
    'Operating System :: MacOS',
    'Programming Language :: Python :: 3',
    'Programming Language :: Python :: 3.10',
    'Programming Language :: Python :: 3.11',
    'Programming Language :: Python :: 3.12',
    'Programming Language :: Python :: 3.13',
]


def read_requirements(requirements_file: pathlib.Path) -> list:
    """
    Read requirement specifiers from a requirements file, dropping blank
    lines and comments (including inline comments).

    Args:
        requirements_file (pathlib.Path): Path to requirements file

    Returns:
        list: Requirement strings for install_requires / extras_require
    """
    if not requirements_file.exists():
        return []

    requirements = []
    for line in requirements_file.read_text(encoding='utf-8').splitlines():
        line = line.split('#')[0].strip()
        if line:
            requirements.append(line)
    return requirements


def read_long_description() -> str:
    """
    Return README.md content for the PyPI long description, falling back to
    the short description when the README is absent.
    """
    if README_PATH.exists():
        return README_PATH.read_text(encoding='utf-8')
    return DESCRIPTION


def get_version_from_package() -> str:
    """
    Extract ``__version__`` from imcdatasets/_version.py.

    Returns:
        str: Package version string

    Raises:
        RuntimeError: If the version assignment cannot be found
    """
    content = VERSION_PATH.read_text(encoding='utf-8')
    match = re.search(r"^__version__\s*=\s*['\"]([^'\"]+)['\"]", content, re.MULTILINE)
    if not match:
        raise RuntimeError(f"Unable to find __version__ in {VERSION_PATH}")
    return match.group(1)


def get_package_data() -> dict:
    """
    Non-Python files shipped inside the package: the catalog summary table.
    """
    package_data_patterns = []
    data_dir = PACKAGE_DIR / 'data'
    if data_dir.exists():
        package_data_patterns.extend(['data/*.csv'])
    return {'imcdatasets': package_data_patterns} if package_data_patterns else {}


def setup_package():
    """
    Assemble metadata, dependencies and entry points and call setuptools.setup().
    """
    version = get_version_from_package()

    install_requires = read_requirements(REQUIREMENTS_PATH)
    dev_requirements = read_requirements(DEV_REQUIREMENTS_PATH)

    setup_config = {
        'name': PACKAGE_NAME,
        'version': version,
        'description': DESCRIPTION,
        'long_description': read_long_description(),
        'long_description_content_type': 'text/markdown',
        'author': AUTHOR,
        'author_email': AUTHOR_EMAIL,
        'url': URL,
        'license': LICENSE,
        'keywords': KEYWORDS,
        'classifiers': CLASSIFIERS,

        'packages': setuptools.find_packages(include=['imcdatasets', 'imcdatasets.*']),
        'package_dir': {'': '.'},

        'install_requires': install_requires,

        'extras_require': {
            'dev': dev_requirements,
            'test': [
                'pytest>=8.0.0',
                'pytest-cov>=4.0.0',
            ],
        },

        'entry_points': {
            'console_scripts': [
                'imcdatasets=imcdatasets.cli:main',
            ]
        },

        'package_data': get_package_data(),

        'python_requires': '>=3.10',

        'zip_safe': False,
        'include_package_data': True,
    }

    setuptools.setup(**setup_config)


if __name__ == '__main__':
    setup_package()
