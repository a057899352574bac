ab_test(
    "Checkout Button",
    alternatives=("green", "orange"),
    metrics=("purchases",),
    description="Colour of the checkout button on the cart page",
)
