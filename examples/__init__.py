"""
Seven Seas examples.

    **pirate_ships.py**: mint a collection, 32 ships and the pirate fungible
    tokens on devnet, retrying each ship on failure.

    **common.py**: environment based configuration shared by the examples.

Run from the repository root::

    python -m examples.pirate_ships --find-by-mint
"""
