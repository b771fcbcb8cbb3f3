"""Engine modules used by the embedctl commands."""
