from setuptools import setup, find_packages

setup(
    name="cozyclip",
    version="1.0.0",
    packages=find_packages(exclude=['tests', 'tests.*']),
    py_modules=['main', 'schemas'],
    data_files=[('data', ['data/quests.json', 'data/shop_items.json'])],
    install_requires=[
        'firebase-admin>=6.2.0',
        'firebase-functions>=0.1.0',
        'google-cloud-firestore>=2.11.1',
        'google-api-core>=2.11.0',
        'Flask>=2.3.2',
        'Flask-CORS>=4.0.0',
        'pydantic>=2.0',
        'python-dateutil>=2.8.2',
        'pytz>=2023.3',
        'python-dotenv>=1.0.0',
    ],
    extras_require={
        'test': [
            'pytest>=7.4.0',
            'pytest-mock>=3.11.1',
        ],
    },
)
