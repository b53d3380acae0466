from fastapi import Depends, Request

from .container import ApplicationContainer


def get_container(request: Request) -> ApplicationContainer:
    container = getattr(request.app.state, "container", None)
    if not container:
        raise RuntimeError("Application container not initialised.")
    return container


def get_persistence_gateway(container: ApplicationContainer = Depends(get_container)):
    return container.persistence


def get_account_service(container: ApplicationContainer = Depends(get_container)):
    return container.account_service


def get_cycle_resolver(container: ApplicationContainer = Depends(get_container)):
    return container.cycle_resolver


def get_lifecycle(container: ApplicationContainer = Depends(get_container)):
    return container.lifecycle


def get_entitlements(container: ApplicationContainer = Depends(get_container)):
    return container.entitlements
