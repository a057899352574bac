metric("Cart Adds", description="Items added to the shopping cart")
