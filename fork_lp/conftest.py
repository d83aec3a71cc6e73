pytest_plugins = ["fork_lp.testing.fork"]


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: requires a local Anvil/Hardhat mainnet fork"
    )
