# setup.py
from setuptools import setup

setup(
    name="SpriteArena",
    version="0.1.0",
    packages=["common", "engine", "game"],
    py_modules=["client", "server"],
    install_requires=["panda3d"],
    extras_require={"test": ["pytest"]},
    python_requires=">=3.8",
    options = {
        "build_apps": {
            "gui_apps":     {"Client": "client.py"},
            "console_apps": {"Relay": "server.py"},
            "include_patterns": ["common/**","engine/**","game/**","configs/**"],
            "exclude_patterns": ["**/__pycache__/**","**/*.pyc","configs/client_state.json"],
            "plugins": ["pandagl","p3openal_audio"],
            "platforms": ["manylinux2014_x86_64","win_amd64","macosx_11_0_arm64"],
            "log_filename": None,
        }
    }
)
