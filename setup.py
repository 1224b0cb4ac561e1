from pathlib import Path

from setuptools import find_packages, setup

ROOT = Path(__file__).parent

# Read requirements (ignore comments and recursive -r entries)
req_path = ROOT / "requirements.txt"
requirements = []
if req_path.exists():
    for line in req_path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or line.startswith("-r"):
            continue
        requirements.append(line)

readme = (ROOT / "README.md").read_text(encoding="utf-8") if (ROOT / "README.md").exists() else ""

setup(
    name="greentech-telemetry",
    version="1.0.0",
    description="GreenTech greenhouse telemetry core: broker link, agronomic analytics and alerting",
    long_description=readme,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=("tests", "tests.*", "docs")),
    py_modules=["run_server"],
    python_requires=">=3.9,<4",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-flask>=1.2.0",
            "pytest-cov>=4.1.0",
            "black>=23.7.0",
            "flake8>=6.0.0",
        ],
        "ai": ["openai>=1.0.0"],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Scientific/Engineering :: Agriculture",
        "Topic :: Home Automation",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
    ],
    keywords="iot agriculture greenhouse mqtt sensors telemetry",
    entry_points={
        "console_scripts": [
            "greentech-server=run_server:main",
        ]
    },
    include_package_data=True,
)
