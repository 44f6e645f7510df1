
# Page view symbols.  A `page_views` mapping passed to the server may
# replace any of these renderers.
VIEW_LOGIN = 'login'
VIEW_LOGIN_SUCCESS = 'login_success'
VIEW_INVALID_SERVICE = 'invalid_service'
VIEW_ERROR_5XX = 'error5xx'
VIEW_BAD_REQUEST = 'bad_request'
VIEW_NOT_FOUND = 'not_found'
