from setuptools import find_packages, setup

setup(
    name='histoctl',
    version='0.2.0',
    description='Rewrite git history dates so commits fall outside opening hours',
    packages=find_packages(exclude=['tests']),
    python_requires='>=3.8',
    install_requires=[
        'rich',
        'pypager',
        'prompt_toolkit',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'histoctl=historiography.main:main',
        ],
    },
)
