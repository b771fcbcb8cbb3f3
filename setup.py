from setuptools import setup, find_packages

setup(
    name='embedctl',
    version='1.2.4',
    packages=find_packages(),
    include_package_data=True,
    package_data={
        'embedctl.modules.k0s': ['templates/*.j2', 'static/*.yaml'],
    },
    install_requires=[
        'typer[all]',
        'kubernetes',
        'python-dotenv',
        'requests',
        'pyyaml>=5.3.1',
        'pydantic>=2',
        'jinja2',
        'jsonschema',
        'rich',
        'tenacity>=8.0.0',
        'psutil',
    ],
    extras_require={
        'dev': [
            'pytest>=6.2.2',
            'pytest-cov>=2.11.1',
        ],
    },
    entry_points={
        'console_scripts': [
            'embedctl=embedctl.cli:app'
        ]
    },
    author='Your Name',
    description='Installs a single node k0s cluster on a bare host or joins a host to an existing one',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
        'Topic :: System :: Clustering',
    ],
    python_requires='>=3.8',
)
