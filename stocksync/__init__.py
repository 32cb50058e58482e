"""StockSync — keeps storefront stock status in line with ERP inventory."""
