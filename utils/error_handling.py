import functools
import logging
from utils.exceptions import TemplateBuildError, OperationError
from modules.error_classifier import classify

def handle_operation_errors(operation_name: str):
    """
    Decorator for consistent error handling in build operations.

    Our own exceptions pass through untouched. Anything else is classified,
    logged through the instance's ``log_service`` (with suggestions) and
    re-raised as OperationError carrying the category.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except TemplateBuildError:
                raise
            except Exception as e:
                message = f"{operation_name} failed: {e}"
                owner = args[0] if args else None
                log_service = getattr(owner, 'log_service', None)
                component = getattr(owner, 'component', operation_name)
                if log_service is not None:
                    log_service.handle(message, component)
                else:
                    logging.getLogger().error(message, exc_info=True)
                raise OperationError(message, category=classify(str(e)).value) from e
        return wrapper
    return decorator
