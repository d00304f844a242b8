# Models package - auth database models
from acado_auth.models.account import Account, AccountRole
from acado_auth.models.password_reset import PasswordResetRecord
