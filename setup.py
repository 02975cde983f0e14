from setuptools import setup


setup(
    name="call-dashboard",
    version="0.1.0",
    description="Call-center KPIs and charts from inbound, outbound, connect-rate and FCR CSV exports",
    packages=["call_dashboard"],
    package_data={
        "call_dashboard": [
            "settings/*.json",
        ]
    },
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "streamlit",
        "requests",
    ],
    entry_points={
        "console_scripts": [
            "call-dashboard=call_dashboard.cli:main",
        ]
    },
)
