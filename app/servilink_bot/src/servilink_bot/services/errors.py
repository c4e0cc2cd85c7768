from servilink_bot.services.result import Err, ErrorKind


def user_friendly_error(err: Err) -> str:
    if err.kind == ErrorKind.NETWORK:
        return "No pudimos conectarnos con ServiLink. Revisá tu conexión e intentá nuevamente."
    if err.kind == ErrorKind.AUTH:
        return "Tu sesión expiró. Iniciá sesión nuevamente con /start."
    if err.kind == ErrorKind.VALIDATION:
        return err.message or "Revisá los datos ingresados."
    return "Error del servidor. Intentá más tarde."
