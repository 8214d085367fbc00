"""HTTP handlers for cart operations.

Handlers convert between DTOs (API contracts) and cart service calls.
Each call works on a CartService already bound to the caller's session.
"""

from pos_cart.dto import (
    AddItemRequest,
    BatchAddRequest,
    BatchAddResponse,
    CartContentsResponse,
    CartItemResponse,
    CartStatusResponse,
    CartTotalsResponse,
    CouponRequest,
    CustomerRequest,
    LocationRequest,
    UpdateQuantityRequest,
)
from pos_cart.entities import CustomerLocation
from pos_cart.services import CartService

from .errors import translate_errors


class CartHandler:
    """HTTP handlers for cart operations.

    Example:
        ```python
        handler = CartHandler()

        @app.post("/cart/items", response_model=CartContentsResponse)
        def add_item(request: AddItemRequest, cart: CartDep):
            return handler.add_item(cart, request)
        ```
    """

    def contents(self, cart: CartService, calculate: bool = True) -> CartContentsResponse:
        return CartContentsResponse.model_validate(cart.get_contents(calculate=calculate))

    def add_item(self, cart: CartService, request: AddItemRequest) -> CartContentsResponse:
        """Handle POST /cart/items.

        Raises:
            HTTPException: 400 for invalid product or quantity, 409 for stock conflicts
        """
        with translate_errors("add item"):
            cart.add_item(
                request.product_id,
                request.quantity,
                variation_id=request.variation_id,
                variation=request.variation,
                data=request.data,
            )
            return self.contents(cart)

    def update_item(self, cart: CartService, key: str, request: UpdateQuantityRequest) -> CartContentsResponse:
        with translate_errors("update item"):
            cart.update_item_quantity(key, request.quantity)
            return self.contents(cart)

    def remove_item(self, cart: CartService, key: str) -> CartContentsResponse:
        with translate_errors("remove item"):
            cart.remove_item(key)
            return self.contents(cart)

    def clear(self, cart: CartService) -> CartContentsResponse:
        with translate_errors("clear cart"):
            cart.clear()
            return self.contents(cart)

    def batch_add(self, cart: CartService, request: BatchAddRequest) -> BatchAddResponse:
        with translate_errors("add items"):
            result = cart.batch_add([item.model_dump() for item in request.items])
            return BatchAddResponse.model_validate(result)

    def apply_coupon(self, cart: CartService, request: CouponRequest) -> CartContentsResponse:
        with translate_errors("apply coupon"):
            cart.apply_coupon(request.code)
            return self.contents(cart)

    def remove_coupon(self, cart: CartService, code: str) -> CartContentsResponse:
        with translate_errors("remove coupon"):
            cart.remove_coupon(code)
            return self.contents(cart)

    def set_location(self, cart: CartService, request: LocationRequest) -> CartContentsResponse:
        with translate_errors("set customer location"):
            cart.set_customer_location(CustomerLocation(**request.model_dump()))
            return self.contents(cart)

    def set_customer(self, cart: CartService, request: CustomerRequest) -> CartContentsResponse:
        with translate_errors("set customer"):
            cart.set_customer(request.customer_id)
            return self.contents(cart)

    def totals(self, cart: CartService) -> CartTotalsResponse:
        with translate_errors("calculate totals"):
            return CartTotalsResponse.model_validate(cart.get_totals().to_dict())

    def items(self, cart: CartService) -> list[CartItemResponse]:
        return [CartItemResponse.model_validate(item.to_dict()) for item in cart.cart.items.values()]

    def status(self, cart: CartService) -> CartStatusResponse:
        """Handle GET /cart/status: pre-checkout validation, cart unchanged."""
        with translate_errors("check cart status"):
            return CartStatusResponse.model_validate(cart.check_status())

    def summary(self, cart: CartService) -> dict:
        with translate_errors("summarize cart"):
            return cart.get_summary()
