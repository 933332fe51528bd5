from setuptools import setup


setup(
    name="receipt-sheet",
    version="0.3.0",
    description="Parse OCR receipt text and populate branch daily sales-report workbooks",
    packages=["receipt_sheet"],
    python_requires=">=3.10",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "streamlit",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "receipt-sheet=receipt_sheet.cli:main",
        ]
    },
)
