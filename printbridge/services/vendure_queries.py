"""GraphQL documents for the Vendure Admin and Shop APIs."""

LOGIN_MUTATION = """
  mutation AdminLogin($username: String!, $password: String!) {
    login(username: $username, password: $password, rememberMe: true) {
      __typename
      ... on CurrentUser {
        id
        identifier
      }
      ... on ErrorResult {
        errorCode
        message
      }
    }
  }
"""

ORDER_FIELDS = """
  id
  code
  state
  createdAt
  fulfillments {
    id
    state
    method
    trackingCode
  }
  lines {
    id
    quantity
    productVariant {
      id
      sku
      name
    }
    fulfillmentLines {
      quantity
    }
  }
  shippingAddress {
    fullName
    company
    streetLine1
    streetLine2
    city
    province
    postalCode
    countryCode
    phoneNumber
  }
  customer {
    emailAddress
  }
"""

ORDERS_TO_FULFILL_QUERY = """
  query OrdersToFulfill($take: Int!, $skip: Int!) {
    orders(options: { take: $take, skip: $skip, sort: { createdAt: ASC } }) {
      totalItems
      items {
%s
      }
    }
  }
""" % ORDER_FIELDS

ORDER_BY_CODE_QUERY = """
  query OrderByCode($code: String!) {
    orderByCode(code: $code) {
%s
    }
  }
""" % ORDER_FIELDS

INTROSPECT_MUTATIONS_QUERY = """
  query IntrospectMutations {
    __schema {
      mutationType {
        fields {
          name
        }
      }
    }
  }
"""

CREATE_FULFILLMENT_MUTATION = """
  mutation CreateFulfillment($input: CreateFulfillmentInput!) {
    createFulfillment(input: $input) {
      __typename
      ... on Fulfillment {
        id
        state
        method
      }
      ... on ErrorResult {
        errorCode
        message
      }
      ... on OrderStateTransitionError {
        transitionError
      }
    }
  }
"""

ADD_FULFILLMENT_TO_ORDER_MUTATION = """
  mutation AddFulfillmentToOrder($input: FulfillOrderInput!) {
    addFulfillmentToOrder(input: $input) {
      __typename
      ... on Fulfillment {
        id
        state
        method
      }
      ... on ErrorResult {
        errorCode
        message
      }
      ... on FulfillmentStateTransitionError {
        transitionError
      }
    }
  }
"""

TRANSITION_FULFILLMENT_TO_STATE_MUTATION = """
  mutation TransitionFulfillmentToState($id: ID!, $state: String!) {
    transitionFulfillmentToState(id: $id, state: $state) {
      __typename
      ... on Fulfillment {
        id
        state
        method
        trackingCode
      }
      ... on ErrorResult {
        errorCode
        message
      }
      ... on FulfillmentStateTransitionError {
        transitionError
      }
    }
  }
"""

UPDATE_FULFILLMENT_TRACKING_MUTATION = """
  mutation UpdateFulfillmentTracking($input: UpdateFulfillmentInput!) {
    updateFulfillment(input: $input) {
      __typename
      ... on Fulfillment {
        id
        state
        method
        trackingCode
      }
      ... on ErrorResult {
        errorCode
        message
      }
    }
  }
"""

PRODUCT_FIELDS = """
  id
  slug
  name
  description
  assets { preview source type }
  variants { id sku name price priceWithTax currencyCode }
"""

PRODUCT_BY_ID_QUERY = """
  query ProductById($id: ID!) {
    product(id: $id) {
%s
    }
  }
""" % PRODUCT_FIELDS

PRODUCT_BY_SLUG_QUERY = """
  query ProductBySlug($slug: String!) {
    productBySlug(slug: $slug) {
%s
    }
  }
""" % PRODUCT_FIELDS

# ==================== SHOP API ====================

SHOP_PRODUCT_VARIANTS_QUERY = """
  query ShopProductVariants($slug: String!) {
    product(slug: $slug) {
      id
      slug
      name
      variants {
        id
        name
        priceWithTax
        stockLevel
      }
    }
  }
"""

SHOP_UPSELL_SOURCE_QUERY = """
  query UpsellSource($slug: String!) {
    product(slug: $slug) {
      id
      slug
      name
      featuredAsset { preview }
      collections { id name }
      facetValues { id name code facet { id code } }
      variants { id priceWithTax }
    }
  }
"""

SHOP_SEARCH_QUERY = """
  query UpsellSearch($facetValueIds: [ID!], $collectionIds: [ID!], $take: Int!) {
    search(input: {
      groupByProduct: true,
      take: $take,
      facetValueIds: $facetValueIds,
      filter: { collectionId: { in: $collectionIds } }
    }) {
      items {
        productId
        slug
        productName
        priceWithTax
        preview
      }
    }
  }
"""

SHOP_CANDIDATE_QUERY = """
  query UpsellCandidate($id: ID!) {
    product(id: $id) {
      id
      slug
      name
      assets { preview }
      facetValues { id name code facet { code } }
    }
  }
"""
