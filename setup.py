from setuptools import setup

setup(
    url='none',
    author='Matt Haggard',
    author_email='haggardii@gmail.com',
    name='txsso',
    version='0.2',
    packages=[
        'txsso', 'txsso.test', 'twisted.plugins',
    ],
    package_data={
        'twisted': ['plugins/txsso_plugin.py'],
    },
    install_requires=[
        'klein',
        'treq',
        'Twisted[tls]>=22.10.0',
        'werkzeug',
        'zope.interface',
    ],
    extras_require={
        'test': ['mock'],
    },
)
