from app.schemas.auth import (
    LoginRequest, SendOTPRequest, VerifyOTPRequest, CheckEmailResponse, VerifyOTPResponse,
    CompleteRegistrationRequest, ResetPasswordRequest, ChangePasswordRequest,
    ChangeTemporaryPasswordRequest, RefreshTokenRequest, TokenResponse, LoginResponse,
    MessageResponse,
)
from app.schemas.account import AccountRecord, AccountOut, UpdateProfileRequest
from app.schemas.relationship import (
    RelationshipStatus, EdgeRecord, EdgeListResponse, RelationshipStatusResponse, FollowResponse,
)
