PROMQL = """
start: expr

// Binary operations are defined separately in order to support precedence

?expr: or_expr

?or_expr\
    : and_unless_expr
    | or_expr OR grouping? and_unless_expr -> binary_expr

?and_unless_expr\
    : comparison_expr
    | and_unless_expr (AND | UNLESS) grouping? comparison_expr -> binary_expr

?comparison_expr\
    : sum_expr
    | comparison_expr COMPARISON_OP BOOL? grouping? sum_expr -> binary_expr

?sum_expr\
    : product_expr
    | sum_expr (ADD | SUB) grouping? product_expr -> binary_expr

?product_expr\
    : unary_expr
    | product_expr (MUL | DIV | MOD | ATAN2) grouping? unary_expr -> binary_expr

?unary_expr\
    : power_expr
    | (ADD | SUB) unary_expr

?power_expr\
    : postfix_expr
    | postfix_expr POW grouping? unary_expr -> binary_expr

?postfix_expr\
    : atom
    | postfix_expr "[" DURATION "]" -> matrix_selector
    | postfix_expr "[" DURATION ":" DURATION? "]" -> subquery
    | postfix_expr OFFSET SUB? DURATION -> offset_expr
    | postfix_expr "@" at_modifier -> at_expr

?atom\
    : function_call
    | aggregation
    | vector_selector
    | number_literal
    | duration_literal
    | string_literal
    | paren_expr

number_literal: NUMBER
duration_literal: DURATION
string_literal: STRING
paren_expr: "(" expr ")"

at_modifier\
    : SUB? NUMBER -> at_timestamp
    | METRIC_NAME "(" ")" -> at_function

// Selectors

vector_selector\
    : METRIC_NAME label_matchers?
    | label_matchers

label_matchers: "{" (label_matcher ("," label_matcher)* ","?)? "}"
label_matcher: label_name MATCH_OP STRING

// Functions

function_call: METRIC_NAME parameter_list
parameter_list: "(" (expr ("," expr)*)? ")"

// Aggregations

aggregation\
    : aggregation_operator parameter_list
    | aggregation_operator aggregation_modifier parameter_list
    | aggregation_operator parameter_list aggregation_modifier
aggregation_modifier: (BY | WITHOUT) label_name_list
?aggregation_operator\
    : SUM
    | MIN
    | MAX
    | AVG
    | GROUP
    | STDDEV
    | STDVAR
    | COUNT
    | COUNT_VALUES
    | BOTTOMK
    | TOPK
    | QUANTILE
    | LIMITK
    | LIMIT_RATIO

// Vector one-to-one/one-to-many joins

grouping: (on | ignoring) (group_left | group_right)?
on: ON label_name_list
ignoring: IGNORING label_name_list
group_left: GROUP_LEFT label_name_list?
group_right: GROUP_RIGHT label_name_list?

// Label names

label_name_list: "(" (label_name ("," label_name)* ","?)? ")"
?label_name: keyword | LABEL_NAME

?keyword\
    : AND
    | OR
    | UNLESS
    | ATAN2
    | BY
    | WITHOUT
    | ON
    | IGNORING
    | GROUP_LEFT
    | GROUP_RIGHT
    | OFFSET
    | BOOL
    | aggregation_operator

// Aggregation operators

SUM: "sum"
MIN: "min"
MAX: "max"
AVG: "avg"
GROUP: "group"
STDDEV: "stddev"
STDVAR: "stdvar"
COUNT: "count"
COUNT_VALUES: "count_values"
BOTTOMK: "bottomk"
TOPK: "topk"
QUANTILE: "quantile"
LIMITK: "limitk"
LIMIT_RATIO: "limit_ratio"

// Aggregation modifiers

BY: "by"
WITHOUT: "without"

// Join modifiers

ON: "on"
IGNORING: "ignoring"
GROUP_LEFT: "group_left"
GROUP_RIGHT: "group_right"

// Logical operators

AND: "and"
OR: "or"
UNLESS: "unless"

// Arithmetic operators

ADD: "+"
SUB: "-"
MUL: "*"
DIV: "/"
MOD: "%"
POW: "^"
ATAN2: "atan2"

COMPARISON_OP: "==" | "!=" | ">=" | "<=" | ">" | "<"
MATCH_OP: "=~" | "!~" | "!=" | "="

OFFSET: "offset"

BOOL: "bool"

// Inf and NaN are case-insensitive and take precedence over metric names
NUMBER.1\
    : /0[xX][0-9a-fA-F]+/
    | /([0-9]+\\.?[0-9]*|\\.[0-9]+)([eE][-+]?[0-9]+)?/
    | /(?i:inf|nan)(?![a-zA-Z0-9_:])/

STRING\
    : /"([^"\\\\]|\\\\.)*"/
    | /'([^'\\\\]|\\\\.)*'/
    | /`[^`]*`/

// Checked before NUMBER so that "5m" is never split into "5" and "m"
DURATION.2: /([0-9]+(ms|[smhdwy]))+/

METRIC_NAME: (LETTER | "_" | ":") (DIGIT | LETTER | "_" | ":")*

LABEL_NAME: (LETTER | "_") (DIGIT | LETTER | "_")*

COMMENT: /#[^\\n]*/

%import common.DIGIT
%import common.LETTER
%import common.WS

%ignore WS
%ignore COMMENT
"""
