pytest_plugins = ["pytester", "noleaks.plugin"]
