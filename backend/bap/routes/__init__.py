from importlib import import_module

modules = [
    'submissions',
    'admin',
    'members',
]

for m in modules:
    import_module(f'.{m}', __name__)

__all__ = modules
