# setup.py
import os
from setuptools import setup, find_packages

# Function to read the requirements.txt file
def parse_requirements(filename="requirements.txt"):
    with open(os.path.join(os.path.dirname(__file__), filename), 'r') as f:
        return [line.strip() for line in f if line.strip() and not line.startswith('#')]

# Read the contents of your README file for long description
try:
    with open(os.path.join(os.path.dirname(__file__), 'README.md'), encoding='utf-8') as f:
        long_description = f.read()
except FileNotFoundError:
    long_description = "Apply GitHub pull request review suggestions locally, with an optional LiteLLM fallback."

# Get version from package __init__.py
version = {}
try:
    with open(os.path.join(os.path.dirname(__file__), "src", "pr_suggestion_applier", "__init__.py")) as fp:
        exec(fp.read(), version)
except FileNotFoundError:
    version['__version__'] = "0.1.0-dev" # Fallback version

setup(
    name='pr-suggestion-applier',
    version=version['__version__'],
    description='Apply GitHub PR review suggestions to a local working copy, with AI-assisted fallback via LiteLLM.',
    long_description=long_description,
    long_description_content_type='text/markdown',
    license='Apache License 2.0',
    package_dir={'': 'src'},
    packages=find_packages(where='src', exclude=['tests*', '*.tests', '*.tests.*']),
    package_data={'pr_suggestion_applier': ['prompts/*.txt']},
    include_package_data=True,
    install_requires=parse_requirements(),
    extras_require={
        'test': ['pytest>=7.0'],
    },
    python_requires='>=3.9', # importlib.resources.files
    entry_points={
        'console_scripts': [
            'pr-suggestion-applier = pr_suggestion_applier.main:main_cli',
        ],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: Software Development :: Quality Assurance',
        'Topic :: Software Development :: Version Control :: Git',
    ],
    keywords='github pull request review suggestion patch litellm',
)
