def role_label(role_code: str | None) -> str:
    code = (role_code or "").strip().lower()
    return {
        "cliente": "cliente",
        "contratista": "profesional",
        "admin": "administrador",
    }.get(code, code or "—")
