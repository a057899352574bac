metric("Purchases", description="Completed checkouts")
