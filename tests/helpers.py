"""Constants shared by the test modules."""
TEST_API_KEY = "test-api-key"
AUTH = {"x-api-key": TEST_API_KEY}
