from setuptools import setup


setup(
    name="mall-tax",
    version="0.3.0",
    description="Monthly tax-exempt / taxable totals from messy online-mall spreadsheet exports",
    packages=["mall_tax"],
    python_requires=">=3.9",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "ods": ["odfpy"],
        "all": ["xlrd", "odfpy"],
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "mall-tax=mall_tax.cli:main",
        ]
    },
)
