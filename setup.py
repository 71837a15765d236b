from setuptools import setup


setup(
    name="call-billing",
    version="0.1.0",
    description="Toll-free, ANI and domain billing reports from call-detail CSV and Excel exports",
    packages=["call_billing"],
    python_requires=">=3.10",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "streamlit",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "ods": ["odfpy"],
        "all": ["xlrd", "odfpy"],
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "call-billing=call_billing.cli:main",
        ]
    },
)
