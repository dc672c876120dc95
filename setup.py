from setuptools import setup, find_packages

setup(
    name='shipctl',
    version='0.1.0',
    packages=find_packages(exclude=['shipctl.tests']),
    include_package_data=True,
    package_data={
        'shipctl': ['templates/*.j2'],
    },
    install_requires=[
        'typer[all]',
        'fastapi',
        'uvicorn',
        'kubernetes',
        'paramiko',
        'pydantic>=2',
        'pyyaml',
        'jinja2',
        'cryptography>=42',
        'tenacity',
        'python-dotenv',
        'requests',
        'rich',
        'urllib3',
    ],
    extras_require={
        'test': [
            'pytest',
            'httpx',
        ],
    },
    entry_points={
        'console_scripts': [
            'shipctl=shipctl.cli:app',
        ],
    },
    author='Your Name',
    description='Provision Kubernetes clusters and join machines over SSH with idempotent phases',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
    python_requires='>=3.8',
)
