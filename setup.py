from setuptools import setup


setup(
    name="surgery-reconciler",
    version="0.3.0",
    description="Reconcile hospital surgery list and detail exports, detect scheduling conflicts and compute staff payments",
    packages=["surgery_reconciler"],
    include_package_data=True,
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "requests",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "ods": ["odfpy"],
        "all": ["xlrd", "odfpy"],
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "surgery-reconciler=surgery_reconciler.cli:main",
        ]
    },
)
