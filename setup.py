from setuptools import setup, find_packages

setup(
    name='hadoop-cluster-cli',
    version='1.0.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    py_modules=['cli'],
    include_package_data=True,
    install_requires=[
        'click>=8.1.7',
        'PyYAML>=6.0.1',
        'paramiko>=3.4.0',
        'python-dotenv>=1.0.0',
        'tqdm>=4.66.0',
        'colorlog>=6.8.0',
    ],
    extras_require={
        'test': [
            'pytest>=8.0.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'hadoop-cluster=cli:cli',
        ],
    },
    python_requires='>=3.11',
    description='Bootstrap and operate a small Hadoop/Spark cluster on Ubuntu VMs',
    long_description=open('DESIGN.md').read(),
    long_description_content_type='text/markdown',
)
