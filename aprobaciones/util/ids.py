import ulid


def new_id(prefix: str = "") -> str:
    """
    Genera un ID string ordenable usando ULID.
    Algunas versiones exponen .str y otras no; ambas se convierten bien con str(...).
    """
    u = ulid.new()
    s = getattr(u, "str", None)
    if not s:
        s = str(u)
    return prefix + s
