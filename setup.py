from setuptools import setup  # , find_packages
import os


def use_package(package):
    if not package:
        return False
    if package.startswith(('#', 'git+')):
        return False

    return True


def get_requirements(filename):
    with open(filename, "r") as f:
        return [x.strip().split(";")[0] for x in f.readlines() if use_package(x.strip())]


def get_version():
    basedir = os.path.dirname(__file__)
    with open(os.path.join(basedir, 'gearbox/version.py')) as f:
        locals = {}
        exec(f.read(), locals)
        return locals['VERSION']
    raise RuntimeError('No version info found.')

setup(
    name="gearbox-manager",
    include_package_data=True,
    packages=['gearbox', 'gearbox.bin'],  # find_packages(exclude=['tests', 'tests.fixtures']),
    version=get_version(),
    description="Keeps a pool of job queue workers running, restarts them when they die or when their code changes",
    license='MIT',
    keywords=["worker", "gearman", "job", "queue", "process", "manager", "supervisor", "gevent"],
    platforms='any',
    entry_points={
        'console_scripts': [
            'gearbox-manager = gearbox.bin.gearbox_manager:main'
        ]
    },
    zip_safe=False,
    install_requires=get_requirements("requirements-base.txt"),
    extras_require={
        "test": get_requirements("requirements-tests.txt")
    },
    python_requires=">=3.6",
    classifiers=[
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        #'Development Status :: 1 - Planning',
        #'Development Status :: 2 - Pre-Alpha',
        #'Development Status :: 3 - Alpha',
        'Development Status :: 4 - Beta',
        #'Development Status :: 5 - Production/Stable',
        "Environment :: No Input/Output (Daemon)",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX",
        "Topic :: System :: Distributed Computing"
    ],
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown"
)
