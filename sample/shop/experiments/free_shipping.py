ab_test(
    "Free Shipping Threshold",
    id="free_shipping",
    alternatives=(25, 50, 75),
    metrics=("purchases", "cart_adds"),
    description="Order value above which shipping is free",
)
