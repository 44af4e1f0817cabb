from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake-case attributes in Python, camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Requests ---
#
# Every field is optional at the schema level: presence and blankness are
# checked by the validation pipeline so that all missing fields are
# reported together.  Envelopes default to an empty object for the same
# reason.

class UserRegistration(CamelModel):
    username: str | None = None
    email: str | None = None
    password: str | None = None


class UserLogin(CamelModel):
    email: str | None = None
    password: str | None = None


class UserUpdate(CamelModel):
    username: str | None = None
    email: str | None = None
    password: str | None = None
    bio: str | None = None
    image: str | None = None


class ArticleCreate(CamelModel):
    title: str | None = None
    description: str | None = None
    body: str | None = None
    tag_list: list[str] | None = None


class ArticleUpdate(ArticleCreate):
    pass


class CommentCreate(CamelModel):
    body: str | None = None


class RegistrationRequest(BaseModel):
    user: UserRegistration = Field(default_factory=UserRegistration)


class LoginRequest(BaseModel):
    user: UserLogin = Field(default_factory=UserLogin)


class UserUpdateRequest(BaseModel):
    user: UserUpdate = Field(default_factory=UserUpdate)


class ArticleCreateRequest(BaseModel):
    article: ArticleCreate = Field(default_factory=ArticleCreate)


class ArticleUpdateRequest(BaseModel):
    article: ArticleUpdate = Field(default_factory=ArticleUpdate)


class CommentCreateRequest(BaseModel):
    comment: CommentCreate = Field(default_factory=CommentCreate)


# --- Responses ---

class UserBody(CamelModel):
    email: str
    token: str
    username: str
    bio: str | None = None
    image: str | None = None


class ProfileBody(CamelModel):
    username: str
    bio: str | None = None
    image: str | None = None
    following: bool = False


class ArticleBody(CamelModel):
    slug: str
    title: str
    description: str
    body: str
    tag_list: list[str] = []
    created_at: str
    updated_at: str
    favorited: bool = False
    favorites_count: int = 0
    author: ProfileBody


class CommentBody(CamelModel):
    id: int
    body: str
    created_at: str
    updated_at: str
    author: ProfileBody


class UserResponse(BaseModel):
    user: UserBody


class ProfileResponse(BaseModel):
    profile: ProfileBody


class ArticleResponse(BaseModel):
    article: ArticleBody


class MultipleArticlesResponse(CamelModel):
    articles: list[ArticleBody]
    articles_count: int


class CommentResponse(BaseModel):
    comment: CommentBody


class MultipleCommentsResponse(BaseModel):
    comments: list[CommentBody]


class TagsResponse(BaseModel):
    tags: list[str]
