"""Action package exports."""

from .base import Action, ActionContext, ActionResult, ActionServices
from .browsing import (
    ShowCategoryProductsAction,
    ShowMainMenuAction,
    ShowProductDetailsAction,
    ShowSearchResultsAction,
)
from .cart import AddItemAndShowCartAction, PreserveCartAction, ShowCartAction, UpdateCartAndShowAction
from .checkout import (
    CreateOrderAndConfirmAction,
    RequestAddressAction,
    SaveAddressAndRequestPaymentAction,
    ShowOrderSummaryAction,
)
from .registry import ActionRegistry
from .support import ClearContextAction, NotifyAgentAction, TransferToAgentAction


def default_actions() -> list[Action]:
    return [
        ShowMainMenuAction(),
        ShowProductDetailsAction(),
        ShowCategoryProductsAction(),
        ShowSearchResultsAction(),
        ShowCartAction(),
        AddItemAndShowCartAction(),
        UpdateCartAndShowAction(),
        PreserveCartAction(),
        RequestAddressAction(),
        SaveAddressAndRequestPaymentAction(),
        ShowOrderSummaryAction(),
        CreateOrderAndConfirmAction(),
        NotifyAgentAction(),
        TransferToAgentAction(),
        ClearContextAction(),
    ]


__all__ = [
    "Action",
    "ActionContext",
    "ActionResult",
    "ActionServices",
    "ActionRegistry",
    "default_actions",
    "ShowMainMenuAction",
    "ShowProductDetailsAction",
    "ShowCategoryProductsAction",
    "ShowSearchResultsAction",
    "ShowCartAction",
    "AddItemAndShowCartAction",
    "UpdateCartAndShowAction",
    "PreserveCartAction",
    "RequestAddressAction",
    "SaveAddressAndRequestPaymentAction",
    "ShowOrderSummaryAction",
    "CreateOrderAndConfirmAction",
    "NotifyAgentAction",
    "TransferToAgentAction",
    "ClearContextAction",
]
