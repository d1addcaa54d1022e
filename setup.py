from setuptools import setup, find_packages

setup(
    name='conctl',
    version='0.1.0',
    packages=find_packages(exclude=['conctl.tests', 'conctl.tests.*']),
    include_package_data=True,
    install_requires=[
        'typer',
        'pydantic>=2',
        'PyYAML',
        'jinja2',
        'jsonschema',
        'python-dotenv',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'conctl=conctl.cli:app'
        ]
    },
    description='Talos cluster patch generation and machine config assembly',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.9',
)
