"""Install the account directory package."""

from setuptools import setup, find_packages

setup(
    name='account-directory',
    version='0.1.0',
    packages=find_packages(include=['account_directory', 'account_directory.*'],
                           exclude=['*tests*']),
    install_requires=[
        "flask",
        "sqlalchemy>=1.4",
        "python-dateutil",
        "pytz",
        "redis>=4.0",
        "retry",
        "click",
        "python-json-logger",
    ],
    extras_require={
        'test': [
            "pytest",
            "hypothesis",
            "mimesis",
            "fakeredis>=2.0",
        ],
    },
    entry_points={
        'console_scripts': [
            'account-directory=account_directory.cli:main',
        ],
    },
    zip_safe=False
)
