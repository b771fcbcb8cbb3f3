"""embedctl - install or join an embedded k0s cluster on bare hosts."""

__version__ = "1.2.4"
