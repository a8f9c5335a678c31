from setuptools import setup, find_packages
setup(
    name='flupcas',
    version='0.1',
    packages=find_packages(),
    python_requires='>=3.7',
    install_requires=[
        'requests>=2.20.0',
    ],
    extras_require={
        'test': ['pytest>=6.0'],
    },
    entry_points={
        'console_scripts': [
            'flupcas-pgtserver = flupcas.pgtserver:main',
        ],
    },

    author='Allan Saddi',
    author_email='allan@saddi.com',
    description='WSGI middleware for CAS single sign-on, with proxy ticket support'
)
