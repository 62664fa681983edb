"""Unit tests for the cart and favourites transitions and the stores."""
