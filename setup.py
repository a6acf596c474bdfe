from setuptools import setup, find_packages

setup(
    name='enmeval',
    version='0.1.0',
    description='Tuning, evaluation and null-model testing of ecological niche models',
    author='Matthew Whittle',
    author_email='matthewjwhittle@gmail.com',
    packages=find_packages(include=['enmeval', 'enmeval.*']),
    python_requires='>=3.11',
    install_requires=[
        'numpy',
        'pandas',
        'geopandas',
        'shapely',
        'scipy',
        'scikit-learn',
        'elapid',
        'xarray',
        'rioxarray',
        'pydantic>=2',
        'typer',
        'typing_extensions',
        'pyyaml',
        'pyhere',
        'tqdm',
        'matplotlib',
        'seaborn>=0.13',
        'mlflow>=2.3,<3.10',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'enmeval=enmeval.cli:app',
        ],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Science/Research',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
    ],
)
